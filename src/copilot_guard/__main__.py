"""
Entry point for running copilot_guard as a module.

Allows running the guardrail tool server via:
    python -m copilot_guard
"""

from copilot_guard.server import main

if __name__ == "__main__":
    main()
