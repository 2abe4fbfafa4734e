"""Train the configured classifier and label the test folder.

Usage: ``python main.py configs/end_to_end.yaml``
"""

import sys

from imgcls.cli import main

if __name__ == "__main__":
    config = sys.argv[1] if len(sys.argv) > 1 else "configs/pretrained_graph.yaml"
    raise SystemExit(main(["run", "--config", config]))
