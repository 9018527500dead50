from emerson import create_app

app = create_app()
