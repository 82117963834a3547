import os

class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///gamehall.sqlite'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    # Comma separated list of frontend origins allowed by CORS and Socket.IO
    CORS_ORIGINS = [o.strip() for o in os.environ.get(
        'CORS_ORIGINS',
        'http://localhost:5173,http://127.0.0.1:5173,http://localhost:5174,http://127.0.0.1:5174',
    ).split(',') if o.strip()]
    SOCKETIO_NAMESPACE = os.environ.get('SOCKETIO_NAMESPACE', '/ws')
    # Bearer tokens expire after this many seconds (24h)
    TOKEN_MAX_AGE_SEC = int(os.environ.get('TOKEN_MAX_AGE_SEC', '86400'))
    # Recompute the winning line server-side instead of trusting the client
    SERVER_SIDE_WIN_CHECK = os.environ.get('SERVER_SIDE_WIN_CHECK', '0').lower() in ('1', 'true', 'yes')
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
