"""Command line interface for checking configuration loading"""
from . import get_settings

SECRET_KEYS = {'smtp_password', 'db_url'}

def main():
    """Display loaded configuration"""
    settings = get_settings()

    print("\nSettings Configuration:")
    print("-" * 50)
    for key, value in sorted(settings.items()):
        if key in SECRET_KEYS and value:
            value = '********'
        print(f"{key}: {value}")

if __name__ == "__main__":
    main()
