# run.py
from carbontrack import create_app

app = create_app()

if __name__ == '__main__':
    app.run(
        host='0.0.0.0',
        port=5001,
        debug=app.config.get('DEBUG', False),
        # The reloader would start a second process with its own reminder sweeper
        use_reloader=False,
    )
