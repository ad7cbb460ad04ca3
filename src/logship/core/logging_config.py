import logging
import sys
import socket

# Inside a container the hostname is the container's short id
CONTAINER_HOSTNAME = socket.gethostname()


class SelfMonitoringFilter(logging.Filter):
    """Filter out per-line records about our own container to avoid feedback loops."""
    
    def __init__(self, hostname: str = CONTAINER_HOSTNAME):
        super().__init__()
        self.hostname = hostname[:12]
    
    def filter(self, record):
        container_id = getattr(record, "container_id", None)
        if not container_id or not self.hostname:
            return True
        
        # A record emitted for every line of our own output would be tailed again
        if getattr(record, "per_line", False) and container_id.startswith(self.hostname):
            return False
        
        return True


def setup_logging(level: str = "INFO"):
    """Configure logging with self-monitoring filter."""
    log_level = logging.getLevelName(level.upper())
    if not isinstance(log_level, int):
        log_level = logging.INFO
    
    # Root logger configuration
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    
    # Events go to stdout, so diagnostics go to stderr
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(log_level)
    
    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    console_handler.setFormatter(formatter)
    console_handler.addFilter(SelfMonitoringFilter())
    
    # Clear existing handlers and add our configured handler
    root_logger.handlers.clear()
    root_logger.addHandler(console_handler)
    
    # aiohttp access chatter is not useful for a client
    logging.getLogger("aiohttp").setLevel(max(log_level, logging.WARNING))
    
    return root_logger
