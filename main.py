"""
Convenience entrypoint for the mirror voice assistant.

Allows running `python main.py` in addition to `python -m mirror_voice`.
"""

from mirror_voice.cli import main


if __name__ == "__main__":
    main()
