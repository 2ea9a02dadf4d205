import os
import threading
import webbrowser

import uvicorn

HOST = os.environ.get("FLASHDECK_HOST", "127.0.0.1")
PORT = int(os.environ.get("FLASHDECK_PORT", "8000"))


def main():
    print("Starting Flashdeck...")
    url = f"http://{HOST}:{PORT}/docs"

    # Give the server a moment to bind before opening the browser
    threading.Timer(2.0, webbrowser.open, args=(url,)).start()

    print(f"Serving on {url}. Press Ctrl+C to stop.")
    uvicorn.run("flashdeck.main:app", host=HOST, port=PORT)


if __name__ == "__main__":
    main()
