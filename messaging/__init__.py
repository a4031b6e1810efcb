"""Messaging Package - cross-context request/response plumbing.

Structure:
    messaging/
    ├── exceptions.py   # ChannelError hierarchy
    ├── transport.py    # Transport ABC + in-process LocalTransport
    ├── channel.py      # Channel (RPC multiplexing, liveness sweep)
    ├── websocket.py    # aiohttp WebSocket transport
    └── server.py       # CoordinatorServer (aiohttp endpoint for frames)
"""
