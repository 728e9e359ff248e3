"""Click subcommands, grouped by area. Each module exposes ``register(cli)``."""
