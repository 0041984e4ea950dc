from .builder import ContractBuilder, InteractionBuilder, ResponseBuilder

__all__ = ["ContractBuilder", "InteractionBuilder", "ResponseBuilder"]
