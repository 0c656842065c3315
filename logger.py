import logging
import os
from datetime import datetime
from typing import Optional, Tuple

from config import LOG_DIR


class ChatLogger:
    """Session log for the chat: peer changes, messages and errors."""

    def __init__(self, session: str = "chat", log_dir: Optional[str] = None):
        """
        Initialize logger for one chat session.

        Args:
            session: Name used for the logger and the log file prefix
            log_dir: Directory to store log files (defaults to ./logs)
        """
        self.session = session

        # Set up log directory
        if log_dir is None:
            log_dir = LOG_DIR or os.path.join(os.getcwd(), "logs")
        self.log_dir = str(log_dir)
        os.makedirs(self.log_dir, exist_ok=True)

        # Create timestamped log file
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_filename = f"{session}_{timestamp}.log"
        self.log_path = os.path.join(self.log_dir, log_filename)

        self.logger = logging.getLogger(f"peerchat.{session}")
        self.logger.setLevel(logging.INFO)
        self.logger.propagate = False

        # Remove existing handlers to avoid duplicates
        self.logger.handlers.clear()

        file_handler = logging.FileHandler(self.log_path, encoding="utf-8")
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s | %(levelname)s | %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        self.logger.addHandler(file_handler)

        self.logger.info("=" * 60)
        self.logger.info(f"Chat Session Started - {session}")
        self.logger.info("=" * 60)

    def log_listening(self, host: str, port: int):
        """Log the bound endpoint."""
        self.logger.info(f"SOCKET | Listening on {host}:{port}")

    def log_peer(self, peer: Tuple[str, int], origin: str):
        """Log a change of current peer (origin is 'call' or 'receive')."""
        self.logger.info(f"PEER | {peer[0]}:{peer[1]} | Set by: {origin}")

    def log_message_sent(self, recipient: Tuple[str, int], message: str):
        self.logger.info(f"CHAT OUT | To: {recipient[0]}:{recipient[1]} | Message: {message}")

    def log_message_received(self, sender: Tuple[str, int], message: str, truncated: bool = False):
        suffix = " | TRUNCATED" if truncated else ""
        self.logger.info(f"CHAT IN  | From: {sender[0]}:{sender[1]} | Message: {message}{suffix}")

    def log_error(self, component: str, error: str):
        """Log general error."""
        self.logger.error(f"{component} | Error: {error}")

    def log_info(self, component: str, message: str):
        """Log general info."""
        self.logger.info(f"{component} | {message}")

    def close(self):
        """Close the logger and log session end."""
        self.logger.info("=" * 60)
        self.logger.info(f"Chat Session Ended - {self.session}")
        self.logger.info("=" * 60)

        # Close all handlers
        for handler in list(self.logger.handlers):
            handler.close()
            self.logger.removeHandler(handler)
