"""Beat Room - shared drum loop room server"""

__version__ = "0.1.0"
