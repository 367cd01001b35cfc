import sys
import requests
from lib.config import get_settings

def dry_run_call(base_url: str = None) -> dict:
    """Exercise /api/start-call in dry-run mode without contacting Voiceflow"""
    try:
        settings = get_settings()
        base_url = (base_url or settings.call_proxy_url).rstrip('/')
        if not base_url.startswith(('http://', 'https://')):
            base_url = f"https://{base_url}"

        print(f"Sending dry run to {base_url}/api/start-call...")
        response = requests.post(
            f"{base_url}/api/start-call",
            json={
                'call_log_id': 'dry-run',
                'order_details': {'player_name': 'Test Player', 'edition': 'Icon', 'size': '48', 'quantity': 1},
                'dry_run': True
            },
            timeout=15
        )
        response.raise_for_status()
        data = response.json()

        if data.get('session_id') != 'dry_run_session':
            raise RuntimeError(f"Unexpected dry run response: {data}")
        print("Call proxy is up.")
        return data

    except Exception as e:
        print(f"Dry run failed: {str(e)}")
        raise

if __name__ == "__main__":
    dry_run_call(sys.argv[1] if len(sys.argv) > 1 else None)
