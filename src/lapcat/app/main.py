from typing import Optional

from .cli import main as cli_main
from ..utils.logging import get_logger

logger = get_logger(__name__)


def main(argv: Optional[list] = None) -> int:
    try:
        return cli_main(argv)
    except KeyboardInterrupt:
        logger.info("Program terminated.")
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
