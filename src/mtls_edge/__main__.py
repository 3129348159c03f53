"""Run the edge forwarder under uvicorn.

Usage:
    ORIGIN_URL=https://origin.internal PORT=8443 python -m mtls_edge

Settings are read from the environment (see ``EdgeSettings.from_env``).
The ASGI server in front of this app is expected to attach the TLS
terminator's client-certificate record to the ``tls`` scope extension.
"""

import os

import uvicorn

from .main import create_app
from .observability.logging import configure_logging, get_logger
from .settings import EdgeSettings


def main():
    host = os.environ.get("HOST", "127.0.0.1")
    port = int(os.environ.get("PORT", "8000"))

    configure_logging()
    app = create_app(EdgeSettings.from_env())

    get_logger(__name__).info("edge_listening", host=host, port=port)
    uvicorn.run(app, host=host, port=port, log_config=None)


if __name__ == "__main__":
    main()
