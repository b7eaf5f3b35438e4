"""Small helpers shared by the token lifecycle and REST layers."""
