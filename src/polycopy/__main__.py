"""Allow running as: python -m polycopy"""
from dotenv import load_dotenv

load_dotenv()

from polycopy.main import cli_main  # noqa: E402

if __name__ == "__main__":
    cli_main()
