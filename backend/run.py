from snipegame import create_app, socketio
from snipegame.services.scheduler import schedule_pending_snipes

app = create_app()

if __name__ == '__main__':
    # Snipes left pending by a previous process still need their expiry timers
    schedule_pending_snipes(app)
    # Use SocketIO server to enable websockets in dev
    socketio.run(app, debug=True)
