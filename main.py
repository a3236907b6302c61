"""
AgentCanvas - interactive canvas for multi-agent orchestration workspaces
Main entry point for the application
"""
import logging
import sys

import flet as ft
from dotenv import load_dotenv

from agentcanvas.ui.app import main

# Load environment variables from .env file (for development)
load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stdout,
)


if __name__ == "__main__":
    ft.app(target=main)
