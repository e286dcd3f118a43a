from pathlib import Path

# Aggregation script
LUA_SCRIPT = Path(__file__).parent / "lua" / "script.lua"
SCRIPT_KINDS = ("counts", "plot_counts", "plot_tracks", "operation")

# Lua `unpack` limit (LUAI_MAXCSTACK)
MAX_SCRIPT_KEYS = 8000

# Set operators understood by the `operation` kind
OPERATORS = ("AND", "OR", "XOR", "NOT", "MINUS")
