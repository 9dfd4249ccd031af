"""Client-facing aiohttp surface."""
