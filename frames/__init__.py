"""Frame side of the keyboard protocol

- window.py / document.py: in-process frame model (BeautifulSoup documents)
- frame_registry.py: child frame registration
- hint_collector.py: hint candidates, labels and filtering
- frame_modes.py / frame_commands.py: per-frame key handling
- frame_agent.py: the frame end of the coordinator channel
- page.py: a whole tab of frames wired to a hub
"""
