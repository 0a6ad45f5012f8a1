import sys

from appgen.pipeline import main

sys.exit(main())
