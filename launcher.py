"""
Epub2Pdf - desktop launcher
Starts the Flask server and opens the default browser.
"""
import sys
import os
import threading
import webbrowser
import time

# PyInstaller bundle: resources live in _MEIPASS, settings next to the executable
if getattr(sys, 'frozen', False):
    BASE_DIR = sys._MEIPASS
    APP_DIR = os.path.dirname(sys.executable)
else:
    BASE_DIR = os.path.dirname(os.path.abspath(__file__))
    APP_DIR = BASE_DIR

HOST = '127.0.0.1'
PORT = int(os.getenv('PORT', '5000'))


def open_browser(url, delay=2.0):
    """Open the UI once the server had time to start."""
    time.sleep(delay)
    webbrowser.open(url)


def main():
    if BASE_DIR not in sys.path:
        sys.path.insert(0, BASE_DIR)
    os.chdir(APP_DIR)

    from app import create_app
    from epub2pdf.log import configure_logging

    configure_logging()
    url = f'http://localhost:{PORT}'

    print("=" * 50)
    print("  Epub2Pdf starting...")
    print("=" * 50)
    print()
    print(f"  Server: {url}")
    print("  Quit: Ctrl+C or close this window")
    print()

    browser_thread = threading.Thread(target=open_browser, args=(url,), daemon=True)
    browser_thread.start()

    create_app().run(host=HOST, port=PORT, debug=False, use_reloader=False)


if __name__ == '__main__':
    main()
