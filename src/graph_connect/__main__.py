# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/graph_connect

"""
Web host bootstrap: `python -m graph_connect`.
"""

from graph_connect.config import GraphConnectConfig, WebHostConfig
from graph_connect.utils.logger import logger
from graph_connect.web import create_app


def main() -> None:
    host_config = WebHostConfig()
    app = create_app(GraphConnectConfig())  # type: ignore[call-arg]
    logger.info(f"Starting web host on {host_config.host}:{host_config.port}")
    app.run(host=host_config.host, port=host_config.port, debug=host_config.debug)


if __name__ == "__main__":  # pragma: no cover
    main()
