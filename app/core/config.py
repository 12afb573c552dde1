from pydantic_settings import BaseSettings
from dotenv import load_dotenv
from pathlib import Path
import os


load_dotenv()


class Settings(BaseSettings):
    app_name: str = "Material Catalog API"
    debug: bool = False
    database_url: str = "sqlite:///./catalog.db"
    host: str = "127.0.0.1"
    port: int = 8000
    allowed_hosts: str = ""
    storage_dir: Path = Path(__file__).parent.parent.parent / "storage"
    storage_enabled: bool = True
    material_image_max_width: int = 720
    material_image_max_height: int = 720
    log_file: str = "logs/application.log"
    history_log_file: str = "logs/history.log"


settings = Settings()

if not settings.database_url:
    raise RuntimeError("Database URL not configured.")


os.makedirs(settings.storage_dir, exist_ok=True)
