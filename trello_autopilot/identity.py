"""
trello-autopilot identity constants.
"""

__version__ = "0.3.0"
__codename__ = "trello-autopilot"
__tagline__ = "Cards in. Fixes out."

BANNER = r"""
 _            _ _                       _              _ _       _
| |_ _ __ ___| | | ___         __ _ _  _| |_ ___  _ __ (_) | ___ | |_
| __| '__/ _ \ | |/ _ \ _____ / _` | || |  _/ _ \| '_ \| | |/ _ \| __|
| |_| | |  __/ | | (_) |_____| (_| | || | || (_) | |_) | | | (_) | |_
 \__|_|  \___|_|_|\___/       \__,_|\_,_|\__\___/| .__/|_|_|\___/ \__|
                                                 |_|
"""
