from .exporter import main

raise SystemExit(main())
