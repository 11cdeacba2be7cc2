from pydantic_settings import BaseSettings
from pydantic import field_validator
from typing import List, Any
import json

class Settings(BaseSettings):
    database_url: str = "sqlite:///./mailsafe.db"
    debug: bool = True
    host: str = "0.0.0.0"
    port: int | None = None
    cors_origins: List[str] = []

    max_content_size: int = 10 * 1024 * 1024  # 10MB

    # Outlook renders anything below ~10px as invisible dots
    # Outlookは10px未満の文字をほぼ不可視の点として描画する
    min_font_size_px: int = 10
    # Font size assumed when an element has no inline font-size
    # インラインのfont-sizeが無い要素で仮定するフォントサイズ
    default_font_size_px: int = 14
    pt_to_px_ratio: float = 1.333

    # Image layout defaults
    # 画像レイアウトのデフォルト値
    fallback_image_width_px: int = 260
    side_image_margin_px: int = 15
    side_image_gutter_px: int = 15
    emit_image_height_attribute: bool = True

    # Base typography applied on the outer wrapper cell
    # 外側ラッパーセルに付与する基本タイポグラフィ
    template_font_family: str = "Calibri, Arial, sans-serif"
    template_font_size_px: int = 14
    template_line_height: str = "1.5"

    class Config:
        # Load from backend/.env while allowing real environment overrides
        # backend/.envから読み込みつつ環境変数の上書きを許可する
        env_file = ".env"

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: Any) -> Any:
        """Normalize CORS_ORIGINS from JSON or comma-separated strings.
        CORS_ORIGINSをJSON文字列またはカンマ区切り文字列として扱えるように整形する。
        """
        if isinstance(v, str):
            s = v.strip()
            if s.startswith("["):
                try:
                    return json.loads(s)
                except ValueError:
                    pass
            return [item.strip() for item in s.split(",") if item.strip()]
        return v

settings = Settings()
