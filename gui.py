import html
from typing import Optional

from PyQt6 import QtCore
from PyQt6.QtWidgets import (
    QDialog,
    QDialogButtonBox,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QMainWindow,
    QPushButton,
    QTextEdit,
    QVBoxLayout,
    QWidget,
)

from config import WINDOW_HEIGHT, WINDOW_TITLE, WINDOW_WIDTH
from network import NetworkManager


def format_event(event: dict) -> Optional[str]:
    """Render one network event as a log line, or None if it is not shown."""
    etype = event.get("type")

    if etype == "chat_message":
        prefix = "You" if event.get("direction") == "outgoing" else "Other"
        line = f"{prefix}: {event.get('message', '')}"
        if event.get("truncated"):
            line += " [truncated]"
        return line

    if etype == "status":
        return event.get("message", "")

    # peer_changed only updates the title bar
    return None


class NetworkEventBridge(QtCore.QObject):
    """Qt bridge object to safely receive events from the receive loop thread."""
    event_received = QtCore.pyqtSignal(dict)


# ----------------------------------------------------------------------
# Call dialog
# ----------------------------------------------------------------------
class CallDialog(QDialog):
    """Modal dialog asking for the peer's IP address.

    Connect only closes the dialog once the address resolves; a bad address
    leaves it open for another try.
    """

    def __init__(self, network: NetworkManager, parent=None):
        super().__init__(parent)
        self.network = network
        self.setWindowTitle("Enter IP")
        self.setModal(True)
        self.setMinimumWidth(250)

        layout = QVBoxLayout(self)
        layout.setSpacing(8)
        layout.setContentsMargins(16, 16, 16, 16)

        layout.addWidget(QLabel("IP Address:"))

        self.ip_input = QLineEdit()
        self.ip_input.setPlaceholderText("e.g. 192.168.1.20")
        layout.addWidget(self.ip_input)

        self.error_label = QLabel("")
        self.error_label.setObjectName("callError")
        self.error_label.setStyleSheet("color: #d70015;")
        layout.addWidget(self.error_label)

        buttons = QDialogButtonBox(QDialogButtonBox.StandardButton.Cancel)
        connect_btn = buttons.addButton("Connect", QDialogButtonBox.ButtonRole.AcceptRole)
        connect_btn.setDefault(True)
        buttons.accepted.connect(self.accept)
        buttons.rejected.connect(self.reject)
        layout.addWidget(buttons)

        self.ip_input.setFocus()

    def get_address(self) -> str:
        return self.ip_input.text().strip()

    def accept(self):
        if self.network.connect_peer(self.get_address()):
            super().accept()
            return
        self.error_label.setText("Invalid IP address")
        self.ip_input.selectAll()
        self.ip_input.setFocus()


# ----------------------------------------------------------------------
# Main GUI
# ----------------------------------------------------------------------
class ChatWindow(QMainWindow):
    def __init__(self, network: Optional[NetworkManager] = None):
        super().__init__()

        self.setWindowTitle(WINDOW_TITLE)
        self.resize(WINDOW_WIDTH, WINDOW_HEIGHT)

        # Bridge for thread-safe network events
        self._event_bridge = NetworkEventBridge()
        self._event_bridge.event_received.connect(self.handle_network_event)

        self._setup_ui()
        self._apply_style()

        self.network = network or NetworkManager(gui_callback=self._event_bridge.event_received.emit)
        if self.network.gui_callback is None:
            self.network.gui_callback = self._event_bridge.event_received.emit

        # A failed bind leaves the window open; sending then reports "Send error"
        if self.network.initialize_network():
            self.network.start_listener()

    # ------------------------------------------------------------------
    # UI setup
    # ------------------------------------------------------------------
    def _setup_ui(self):
        central = QWidget()
        self.setCentralWidget(central)

        layout = QVBoxLayout()
        layout.setSpacing(6)
        layout.setContentsMargins(8, 8, 8, 8)
        central.setLayout(layout)

        self.log_view = QTextEdit()
        self.log_view.setReadOnly(True)
        self.log_view.setLineWrapMode(QTextEdit.LineWrapMode.WidgetWidth)
        self.log_view.setVerticalScrollBarPolicy(QtCore.Qt.ScrollBarPolicy.ScrollBarAlwaysOn)
        layout.addWidget(self.log_view)

        input_row = QHBoxLayout()
        self.msg_input = QLineEdit()
        self.msg_input.setPlaceholderText("Type a message")
        self.msg_input.returnPressed.connect(self.send_message)
        input_row.addWidget(self.msg_input)

        self.send_btn = QPushButton("Send")
        self.send_btn.setObjectName("sendButton")
        self.send_btn.clicked.connect(self.send_message)
        input_row.addWidget(self.send_btn)

        self.call_btn = QPushButton("Call")
        self.call_btn.clicked.connect(self.open_call_dialog)
        input_row.addWidget(self.call_btn)

        layout.addLayout(input_row)

    def _apply_style(self):
        self.setStyleSheet("""
            QMainWindow {
                background-color: #fefefe;
            }
            QTextEdit {
                background-color: #ffffff;
                color: #1d1d1f;
                border: 1px solid rgba(0, 0, 0, 0.12);
                border-radius: 6px;
                font-size: 13px;
            }
            QLineEdit {
                border: 1px solid rgba(0, 0, 0, 0.12);
                border-radius: 6px;
                padding: 6px 8px;
            }
            QLineEdit:focus {
                border: 2px solid #0a84ff;
            }
            QPushButton {
                border-radius: 6px;
                padding: 6px 14px;
                border: 1px solid rgba(0, 0, 0, 0.12);
                font-weight: 600;
            }
            QPushButton#sendButton {
                background-color: #0a84ff;
                color: #ffffff;
                border: none;
            }
        """)

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------
    def send_message(self):
        msg = self.msg_input.text()
        if not msg:
            return
        if self.network.send_chat_message(msg):
            self.msg_input.clear()

    def open_call_dialog(self):
        # The dialog sets the peer itself when Connect succeeds
        CallDialog(self.network, self).exec()

    # ------------------------------------------------------------------
    # Network event handling (called on main thread via signal)
    # ------------------------------------------------------------------
    @QtCore.pyqtSlot(dict)
    def handle_network_event(self, event: dict):
        if event.get("type") == "peer_changed":
            host, port = event["peer"]
            self.setWindowTitle(f"{WINDOW_TITLE} - {host}:{port}")

        line = format_event(event)
        if line is not None:
            self._append_line(line)

    def _append_line(self, text: str):
        self.log_view.append(html.escape(text))
        bar = self.log_view.verticalScrollBar()
        bar.setValue(bar.maximum())

    # ------------------------------------------------------------------
    # Cleanup
    # ------------------------------------------------------------------
    def closeEvent(self, event):
        self.network.cleanup()
        event.accept()
