from fastapi import Depends, FastAPI, HTTPException, Form
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
import logging
from datetime import datetime
from typing import Optional
import uuid

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from mailsafe.config import settings
from mailsafe.database import engine, get_db
from mailsafe import models
from mailsafe.transcoder import TranscodeResult, transcode

# Configure logging
# ログ出力を設定する
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Initialize required tables at startup
# アプリ起動時に必要なテーブルを初期化する
models.Base.metadata.create_all(bind=engine)

app = FastAPI(
    title="Email HTML Transcoder",
    description="Convert rich-text editor HTML into email-client-safe HTML",
    version="1.0.0",
)

# Add CORS middleware only when origins are configured
# CORSが設定されている場合のみオリジンを許可するミドルウェアを追加
if settings.cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.get("/")
async def root():
    return {"message": "Email HTML Transcoder API", "version": "1.0.0"}


def _validate_content(html_content: str) -> None:
    if not html_content.strip():
        raise HTTPException(status_code=400, detail="HTML content is required")
    if len(html_content.encode("utf-8")) > settings.max_content_size:
        raise HTTPException(status_code=413, detail="HTML content too large")


def _record_history(db: Session, conversion_id: str, html_content: str, result: TranscodeResult) -> None:
    # History is best effort; a storage failure must not block the conversion
    # 履歴の保存は付随処理なので、失敗しても変換結果は返す
    try:
        db.add(
            models.ConversionHistory(
                conversion_id=conversion_id,
                input_size=len(html_content.encode("utf-8")),
                output_size=len(result.html.encode("utf-8")),
                layout_tables=result.layout_tables,
                images_normalized=result.images_normalized,
            )
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning(f"Failed to record conversion {conversion_id}: {e}")


@app.post("/convert")
def convert_html(
    html_content: str = Form(...),
    min_font_size: Optional[int] = Form(None),
    db: Session = Depends(get_db),
):
    try:
        _validate_content(html_content)
        result = transcode(html_content, min_font_px=min_font_size)

        conversion_id = str(uuid.uuid4())
        _record_history(db, conversion_id, html_content, result)
        logger.info(
            f"Converted {conversion_id}: {result.layout_tables} layout tables, "
            f"{result.images_normalized} images"
        )

        return {
            "success": True,
            "conversion_id": conversion_id,
            "html": result.html,
            "layout_tables": result.layout_tables,
            "images_normalized": result.images_normalized,
        }

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error converting HTML: {e}")
        raise HTTPException(status_code=500, detail=f"Error converting HTML: {str(e)}")


@app.post("/preview")
def preview_html(
    html_content: str = Form(...),
    min_font_size: Optional[int] = Form(None),
):
    """Return the email-safe document so the client can show exactly what is sent.
    送信される内容をそのまま確認できるよう、変換後のHTML文書を返すエンドポイント。
    """
    try:
        _validate_content(html_content)
        result = transcode(html_content, min_font_px=min_font_size)
        return Response(content=result.html, media_type="text/html")
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error rendering preview: {e}")
        raise HTTPException(status_code=500, detail=f"Error rendering preview: {str(e)}")


@app.get("/history/{conversion_id}")
def get_history(conversion_id: str, db: Session = Depends(get_db)):
    entry = (
        db.query(models.ConversionHistory)
        .filter(models.ConversionHistory.conversion_id == conversion_id)
        .first()
    )
    # Return 404 when the conversion was never recorded
    # 記録されていない変換IDの場合は404を返す
    if entry is None:
        raise HTTPException(status_code=404, detail="Conversion not found")
    return {
        "conversion_id": entry.conversion_id,
        "input_size": entry.input_size,
        "output_size": entry.output_size,
        "layout_tables": entry.layout_tables,
        "images_normalized": entry.images_normalized,
        "status": entry.status,
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy", "timestamp": datetime.now().isoformat()}
