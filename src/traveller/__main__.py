from pathlib import Path
import logging
import os
import sys

import httpx
from dotenv import load_dotenv

# Ensure the src directory is on sys.path when running as a script
_SRC_DIR = Path(__file__).resolve().parents[1]
if str(_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(_SRC_DIR))

from traveller.domain.errors import TravellerError
from traveller.presentation.cli import run

load_dotenv()


def _configure_logging() -> None:
    level_name = os.getenv("TRAVELLER_LOG_LEVEL", "WARNING").strip().upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def main(argv=None) -> int:
    _configure_logging()
    try:
        return run(argv)
    except KeyboardInterrupt:
        print("\nSession ended.")
        return 130
    except (TravellerError, OSError, httpx.HTTPError) as exc:
        print("The character generator stopped.")
        print(f"Reason: {exc}")
        print("Check TRAVELLER_DATA_DIR, TRAVELLER_TABLES_URL and TRAVELLER_DATABASE_URL.")
        return 1


if __name__ == "__main__":
    sys.exit(main())
