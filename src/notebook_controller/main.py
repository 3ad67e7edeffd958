"""Main entrypoint for the notebook controller."""

import asyncio
import logging

import kopf
import uvicorn
from fastapi import FastAPI
from kubernetes import config as kube_config  # type: ignore

from notebook_controller.api.router import api_router, health_router
from notebook_controller.controllers import notebook  # noqa: F401  registers the kopf handlers

# Set up logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("notebook-controller")


# Initialize FastAPI app
app = FastAPI(
    title="Notebook Controller",
    description="Kubernetes controller for managing Jupyter notebooks",
    version="0.1.0",
)

# Add API routes
app.include_router(health_router)
app.include_router(api_router)


def load_kube_config() -> None:
    """Load in-cluster credentials, falling back to the local kubeconfig."""
    try:
        kube_config.load_incluster_config()
    except kube_config.ConfigException:
        logger.info("Not running in a cluster, loading kubeconfig")
        try:
            kube_config.load_kube_config()
        except kube_config.ConfigException as e:
            raise kopf.PermanentError(f"Unable to load Kubernetes configuration: {e}") from e


@kopf.on.startup()
def configure(settings: kopf.OperatorSettings, **_) -> None:
    """Configure kopf operator settings."""
    logger.info("Starting Notebook Controller")
    load_kube_config()

    # Events are re-emitted by the controller itself
    settings.posting.enabled = False
    settings.execution.max_workers = notebook.config.max_workers
    logger.info(
        f"Culling enabled={notebook.config.enable_culling}, "
        f"idle time={notebook.config.cull_idle_time}m, check period={notebook.config.idleness_check_period}m"
    )


async def serve() -> None:
    """Run the kopf operator and the FastAPI server side by side."""
    # Run FastAPI server
    config = uvicorn.Config(app=app, host="0.0.0.0", port=8000)
    server = uvicorn.Server(config)

    # Run both tasks
    await asyncio.gather(
        kopf.operator(
            clusterwide=True,
            standalone=True,
        ),
        server.serve(),
    )


# Define the entry point
def run() -> None:
    """Run both kopf operator and FastAPI server in a single process."""
    asyncio.run(serve())


if __name__ == "__main__":
    run()
