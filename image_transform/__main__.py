import sys

from image_transform.cli import run

if __name__ == "__main__":
    sys.exit(run())
