from groupvote import create_app, socketio

application = create_app()

if __name__ == '__main__':
    # SocketIO's server runs the websocket transport and background advance timers
    socketio.run(application, debug=True)
