"""Interactive session engine and Discord bot for the Pokémon economy."""
