from fastapi import Depends, Request
from vokatra_checkout.application.checkout_service import CheckoutService
from vokatra_checkout.application.reconciler import PaymentReconciler
from vokatra_checkout.core_settings import Settings

# Clients are built once in the application lifespan and kept on app.state

def get_datastore(request: Request):
    return request.app.state.datastore

def get_gateway(request: Request):
    return request.app.state.gateway

def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings

def get_checkout_service(
    datastore=Depends(get_datastore),
    gateway=Depends(get_gateway),
    settings: Settings = Depends(get_app_settings),
) -> CheckoutService:
    return CheckoutService(datastore, gateway, settings)

def get_reconciler(datastore=Depends(get_datastore), gateway=Depends(get_gateway)) -> PaymentReconciler:
    return PaymentReconciler(datastore, gateway)
