"""Commands a key sequence can resolve to

- base.py: Command base class, Invocation, scopes
- registry.py: CommandRegistry
- tab_commands.py: tab navigation over the host
- mode_commands.py: mode changes and frame focus
- session_commands.py: hint.* and console.* commands
- loader.py: registers everything above
"""
