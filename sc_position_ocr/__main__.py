import sys

from sc_position_ocr.cli import main

sys.exit(main())
