"""GUI Package - user-visible surfaces.

Structure:
    gui/
    └── status.py       # StatusEmitter - tab status line
"""
