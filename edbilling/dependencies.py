"""FastAPI dependencies for services built once by the application factory."""

from fastapi import Request

from edbilling.services.stripe_gateway import StripeGateway


def get_stripe_gateway(request: Request) -> StripeGateway:
    return request.app.state.stripe_gateway
