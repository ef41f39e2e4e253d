"""HTTP routers mounted by main.py."""
