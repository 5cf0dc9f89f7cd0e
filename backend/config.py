import os

class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    # Comma separated list of allowed browser origins
    CORS_ORIGINS = [o.strip() for o in os.environ.get(
        'CORS_ORIGINS', 'http://localhost:5173,http://127.0.0.1:5173'
    ).split(',') if o.strip()]
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    # Room seats
    DEFAULT_ROOM_CAPACITY = int(os.environ.get('DEFAULT_ROOM_CAPACITY', '4'))
    MAX_ROOM_CAPACITY = int(os.environ.get('MAX_ROOM_CAPACITY', '10'))
    # Delay between a submit and its evaluation (seconds)
    EVALUATION_DELAY_SEC = float(os.environ.get('EVALUATION_DELAY_SEC', '2'))
    # External collaborators
    AI_SERVICE_URL = os.environ.get('AI_SERVICE_URL', 'http://localhost:8001')
    JUDGE_SERVICE_URL = os.environ.get('JUDGE_SERVICE_URL', 'http://localhost:8002')
    FRONTEND_API_URL = os.environ.get('FRONTEND_API_URL', 'http://localhost:3000')
    INTERNAL_API_SECRET = os.environ.get('INTERNAL_API_SECRET', '')
    EXTERNAL_TIMEOUT_SEC = float(os.environ.get('EXTERNAL_TIMEOUT_SEC', '30'))
