from gpudiag.cli import main


raise SystemExit(main())
