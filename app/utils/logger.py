import logging

LOGGER_NAME = "runway-api"

def setup_logger(level: str = "INFO"):
    """配置应用日志"""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler()
        ]
    )
    return logging.getLogger(LOGGER_NAME)
