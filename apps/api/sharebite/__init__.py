"""ShareBite food-donation coordination API."""
