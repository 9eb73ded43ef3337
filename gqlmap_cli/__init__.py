"""gqlmap: map GraphQL operations to the files that declare and use them."""

__version__ = "0.1.0"
