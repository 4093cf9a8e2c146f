from autopilot.runner import main

raise SystemExit(main())
