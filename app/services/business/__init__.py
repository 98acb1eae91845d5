"""Order creation and storage."""
