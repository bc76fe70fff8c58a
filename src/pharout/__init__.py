"""
Pharout: Package PHP command-line projects into executable phar archives.

This tool assembles a single self-running ``.phar`` file from:
- Project source directories (comments and indentation stripped, line numbers kept)
- Composer vendor packages and the Composer autoloader
- An entry-point script, started by a generated bootstrap stub
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
