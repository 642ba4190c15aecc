APP_NAME = "openclaw-panel"
APP_VERSION = "0.1.0"
