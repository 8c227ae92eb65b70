"""FastAPI adapter exposing the Position Tree Kernel."""
