"""User-facing interfaces of Saleengine."""
