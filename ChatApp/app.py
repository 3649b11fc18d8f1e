import logging
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError

from ChatApp.services.generation import check_generation_config
from ChatApp.subapps.chat_routes import generation_validation_handler, router as chat_router


_ROOT = Path(__file__).resolve().parents[1]
load_dotenv(_ROOT / ".env", override=False)

def _configure_logging() -> None:
    root_logger = logging.getLogger()
    if root_logger.handlers:
        return
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")


_configure_logging()

# Missing generation key is only logged; requests fail at call time instead
check_generation_config()

app = FastAPI(title="ChatApp")
app.include_router(chat_router)
app.add_exception_handler(RequestValidationError, generation_validation_handler)
