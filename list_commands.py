"""List all commands and the keys mapped to them"""
from core.coordinator_hub import CoordinatorHub

hub = CoordinatorHub()
commands = {**hub.frame_commands.list_all(), **hub.registry.list_all()}

print(f"Total commands: {len(commands)}\n")

# Group by scope
scopes = {}
for name, data in sorted(commands.items()):
    scopes.setdefault(data["scope"], []).append((name, data))

keys_by_command = {}
for mode, mapping in hub.key_mapping.items():
    for sequence, value in mapping.items():
        keys_by_command.setdefault(value.split("|")[0], []).append(f"{mode}:{sequence}")

for scope, command_list in sorted(scopes.items()):
    print(f"\n=== {scope} ({len(command_list)} commands) ===")
    for name, data in command_list:
        desc = data.get("description", "")[:60]
        keys = ", ".join(keys_by_command.get(name, [])) or "unmapped"
        print(f"  {name}: [{keys}] {desc}")
