import sys

from kube_portforward.cli import main

sys.exit(main())
