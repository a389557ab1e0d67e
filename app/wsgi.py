from app.congregation import create_app

app = create_app()
