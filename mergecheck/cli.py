# mergecheck/cli.py
import sys


def main(argv=None):
    # merge_test is a top-level module installed next to this package
    from merge_test import main as _main
    sys.exit(_main(argv))
