from datapod.commands.gateway import CommandGateway, RequestInput

__all__ = ["CommandGateway", "RequestInput"]
