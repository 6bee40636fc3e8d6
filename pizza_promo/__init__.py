"""Pizza promo prize-game backend."""
