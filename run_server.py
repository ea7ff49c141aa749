# run_server.py
"""
Startet die Tageskasse-API mit uvicorn (auch als PyInstaller-EXE).

    tageskasse [--host 0.0.0.0] [--port 8080] [--no-browser]
"""
import argparse
import os
import sys
import threading
import time
import webbrowser


def _chdir_to_bundle():
    # Als EXE liegen die Dateien unter _MEIPASS; ./db/ soll relativ dazu bleiben
    bundle = getattr(sys, "_MEIPASS", None)
    if bundle and os.path.isdir(bundle):
        os.chdir(bundle)


def _open_docs_when_ready(url: str, wait: float = 0.8):
    def _open():
        time.sleep(wait)
        webbrowser.open(url)
    threading.Thread(target=_open, name="open-docs", daemon=True).start()


def _parse_args(argv):
    from tageskasse.config import settings as app_settings

    p = argparse.ArgumentParser(prog="tageskasse", description=f"{app_settings.APP_NAME} API-Server")
    p.add_argument("--host", default=app_settings.HOST)
    p.add_argument("--port", type=int, default=app_settings.PORT)
    p.add_argument("--no-browser", action="store_true", help="API-Doku nicht automatisch oeffnen")
    return p.parse_args(argv)


def main(argv=None):
    _chdir_to_bundle()
    args = _parse_args(argv)

    import uvicorn
    from tageskasse.config import settings as app_settings

    if not args.no_browser:
        _open_docs_when_ready(f"http://{args.host}:{args.port}/docs")

    uvicorn.run("main:app", host=args.host, port=args.port,
                reload=False, log_level=app_settings.LOG_LEVEL.lower())


if __name__ == "__main__":
    main()
