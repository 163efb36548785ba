from clubshop import create_app

app = create_app()
