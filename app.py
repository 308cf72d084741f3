"""AgentOS Application - Fridge Chef flow server.

Single entry point for the flow server:
- Loads and validates configuration (fail-fast on missing credentials)
- Optionally enables tracing
- Wires the personal chef pipeline from one Config
- Serves the four flows as Agno workflows via AgentOS (REST API + Web UI)

Run with: python app.py
"""

from agno.os import AgentOS

from fridge_chef.flows.personal_chef import PersonalChef
from fridge_chef.utils.config import Config
from fridge_chef.utils.logger import logger
from fridge_chef.utils.tracing import initialize_tracing
from fridge_chef.workflows.workflows import build_workflows


logger.info("=== Initializing Fridge Chef ===")
config = Config()
try:
    config.validate()
except ValueError as e:
    logger.error(f"Configuration error: {e}")
    raise SystemExit(1)

initialize_tracing(config)

chef = PersonalChef.from_config(config)

agent_os = AgentOS(
    id="fridge-chef",
    description="Turns a photo of your fridge into a recipe, and a picture of the result",
    workflows=build_workflows(chef),
)
app = agent_os.get_app()

logger.info("=== Fridge Chef initialization complete ===")


if __name__ == "__main__":
    logger.info(f"Starting Fridge Chef on port {config.PORT}")
    logger.info(f"Access Web UI at: http://localhost:{config.PORT}")
    logger.info(f"API docs available at: http://localhost:{config.PORT}/docs")
    agent_os.serve(app="app:app", port=config.PORT)
