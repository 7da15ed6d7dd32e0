"""apiprobe - automated security assessment for REST, GraphQL and SOAP APIs."""

__version__ = "0.1.0"
