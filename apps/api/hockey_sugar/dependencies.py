"""Accessors for process-scoped objects created in the lifespan handler."""

from typing import Annotated

from fastapi import Depends, Request

from hockey_sugar.services.dexcom_client import DexcomClient
from hockey_sugar.services.notifier import GlucoseEventBroker
from hockey_sugar.services.polling import GlucosePipeline


def get_broker(request: Request) -> GlucoseEventBroker:
    return request.app.state.broker


def get_pipeline(request: Request) -> GlucosePipeline:
    return request.app.state.pipeline


def get_dexcom_client(request: Request) -> DexcomClient:
    return request.app.state.pipeline.client


Broker = Annotated[GlucoseEventBroker, Depends(get_broker)]
Pipeline = Annotated[GlucosePipeline, Depends(get_pipeline)]
Dexcom = Annotated[DexcomClient, Depends(get_dexcom_client)]
