"""
UFree — Entry Point.

Single entry point: `python main.py` starts the Telegram bot.
"""

from ufree.bot.telegram_bot import main

if __name__ == "__main__":
    main()
