"""Allow running as: python -m preset_relay"""

from preset_relay.cli import main

main()
