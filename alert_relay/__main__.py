import sys

from alert_relay.main import main

sys.exit(main())
