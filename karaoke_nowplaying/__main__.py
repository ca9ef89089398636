"""Entry point for python -m karaoke_nowplaying"""
import sys

from .app import main

sys.exit(main())
