# client.py
import logging
import sys

from PyQt6.QtWidgets import QApplication

from gui import ChatWindow


def main():  # initializes and runs the GUI app
    logging.basicConfig(level=logging.WARNING, format="%(asctime)s [%(name)s] [%(levelname)s] %(message)s")

    app = QApplication(sys.argv)

    # Binds the chat port and starts the receive loop
    window = ChatWindow()
    window.show()
    # closeEvent releases the socket before app.exec() returns
    sys.exit(app.exec())


if __name__ == "__main__":
    main()
