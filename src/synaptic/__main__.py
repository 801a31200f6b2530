"""Allow `python -m synaptic`."""

from synaptic.frontends.cli.main import main

if __name__ == "__main__":
    main()
