import os


# 共通設定
class BaseConfig:
    CONN_LIMIT = 100  # 並列接続上限数

    # 画像圧縮
    DEFAULT_QUALITY = 80  # 品質の既定値
    TARGET_START_QUALITY = 90  # 目標サイズ探索の開始品質
    TARGET_QUALITY_STEP = 5  # 目標サイズ探索の品質刻み
    TARGET_MIN_QUALITY = 40  # 目標サイズ探索の下限品質

    # テキスト要約
    HF_INFERENCE_URL = os.getenv(
        "HF_INFERENCE_URL", "https://router.huggingface.co/hf-inference"
    )  # HuggingFace Inference APIのベースURL
    HUGGINGFACE_API_KEY = os.getenv("HUGGINGFACE_API_KEY", "")  # HuggingFace APIキー
    SUMMARIZER_TIMEOUT_SECONDS = 60  # 推論APIのタイムアウト
    SUMMARIZER_MAX_TEXT_LENGTH = 10000  # 要約対象テキストの最大文字数
    SUMMARIZER_RATE_LIMIT = 5  # ウィンドウ内の最大リクエスト数
    SUMMARIZER_RATE_WINDOW_SECONDS = 3 * 60 * 60  # 3時間

    # PDFテキスト抽出
    SCANNED_PDF_CHARS_PER_PAGE = 200  # 1ページあたりの平均文字数がこれ未満ならスキャンPDFとみなす

    # 履歴書の採点
    RESUME_RATE_LIMIT = 5  # ウィンドウ内の最大リクエスト数
    RESUME_RATE_WINDOW_SECONDS = 60 * 60  # 1時間
    RESUME_MAX_FILE_BYTES = 10 * 1024 * 1024  # 10MB
    RESUME_MIN_TEXT_LENGTH = 100  # これ未満の抽出結果はテキスト層なしとみなす
    ADMIN_BYPASS_KEY = os.getenv("ADMIN_BYPASS_KEY", "")  # レート制限を回避する管理用キー


# 開発環境用設定
class DevelopmentConfig(BaseConfig):
    LOG_LEVEL = "DEBUG"


# 本番環境用設定
class ProductionConfig(BaseConfig):
    LOG_LEVEL = "INFO"


# 環境変数に基づいて適切な設定をロード
env = os.getenv("APP_ENV", "dev")
if env == "prod":
    config = ProductionConfig()
else:
    config = DevelopmentConfig()
