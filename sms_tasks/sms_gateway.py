# sms_tasks/sms_gateway.py

import logging
from typing import Optional

from vonage import Vonage, Auth, VonageError as VonageClientError
from vonage_sms import SmsMessage

from .errors import ConfigurationError, SmsDeliveryError


def build_vonage_client(api_key: Optional[str], api_secret: Optional[str]) -> Optional[Vonage]:
    """Returns a Vonage client, or None if credentials are missing or invalid."""
    if not api_key or not api_secret:
        logging.error("Cannot initialize Vonage client due to missing API Key/Secret.")
        return None
    try:
        client = Vonage(auth=Auth(api_key=api_key, api_secret=api_secret))
        logging.info("Vonage client initialized successfully.")
        return client
    except Exception as e:
        logging.exception(f"Failed to initialize Vonage client: {e}")
        return None


class SmsGateway:
    """Sends reply texts through Vonage."""

    def __init__(self, vonage_client: Optional[Vonage], origination_number: Optional[str], configuration_set: str = 'default'):
        self.vonage_client = vonage_client
        self.origination_number = origination_number
        self.configuration_set = configuration_set

    def send_text(self, destination: str, message: str):
        """Sends one SMS. Raises ConfigurationError or SmsDeliveryError."""
        if not self.origination_number:
            logging.error("SMS origination number not configured")
            raise ConfigurationError("SMS configuration error")
        if not self.vonage_client:
            raise ConfigurationError("Vonage client not initialized")

        logging.info(f"Sending SMS from {self.origination_number} to {destination} ({len(message)} chars)")
        try:
            sms_message = SmsMessage(
                to=destination,
                from_=self.origination_number,
                text=message,
                client_ref=self.configuration_set,
            )
            response = self.vonage_client.sms.send(sms_message)
        except VonageClientError as e:
            logging.error(f"Vonage ClientError sending SMS to {destination}: {e}")
            raise SmsDeliveryError(f"SMS send failed: {e}") from e

        first_message_response = response.messages[0] if response.messages else None
        if first_message_response and first_message_response.status == '0':
            logging.info(f"SMS sent successfully to {destination}. Message UUID: {first_message_response.message_id}")
            return first_message_response.message_id
        if first_message_response:
            raise SmsDeliveryError(f"SMS send failed. Status: {first_message_response.status}, Error: {first_message_response.error_text}")
        raise SmsDeliveryError(f"SMS send failed. Unexpected response structure: {response}")
